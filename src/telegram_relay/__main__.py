from telegram_relay.cli import app

app(prog_name="telegram-relay")
