from visionbot.cli.app import app

app()
