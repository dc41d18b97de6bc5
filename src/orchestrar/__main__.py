from orchestrar.cli import app

app(prog_name="orchestrar")
