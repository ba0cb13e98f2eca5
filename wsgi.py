"""
WSGI entry point for the wallet-gate web app
"""
from dotenv import load_dotenv

load_dotenv()

from wallet_gate.factory import create_app  # noqa: E402

app = create_app()

# Gunicorn/uWSGI compatibility
application = app

if __name__ == "__main__":
    cfg = app.config["APP_CONFIG"]
    app.run(host=cfg["APP_HOST"], port=cfg["APP_PORT"], debug=cfg["FLASK_DEBUG"])
