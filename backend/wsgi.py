# backend/wsgi.py
from smartstock import create_app
from smartstock.config import parse_listen_addr

app = create_app()


if __name__ == "__main__":
    host, port = parse_listen_addr(app.config["LISTEN_ADDR"])
    app.run(host=host, port=port, debug=app.config["DEV_MODE"])
