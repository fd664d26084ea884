from nix_monitored.cli import app

app()
