from reconverge.cli.app import app

app()
