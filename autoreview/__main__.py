from autoreview.cli import run

run()
