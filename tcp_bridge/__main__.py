from .cli import app

app(prog_name="tcp-bridge")
