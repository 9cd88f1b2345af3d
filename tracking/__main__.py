import logging

from . import create_app

if __name__ == "__main__":
    # Dev mode, production runs wsgi:app under gunicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    app.run(host=app.config["TRACKING_HOST"], port=app.config["TRACKING_PORT"])
