# app.py (gunicorn + local)

from packhouse.app_factory import create_app

# THIS is what gunicorn needs:
app = create_app()


# Local run only
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
