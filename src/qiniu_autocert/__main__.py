from .main import cli

cli(prog_name='qiniu-auto-cert')
