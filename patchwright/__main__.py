from patchwright.cli import app

app()
