import os

from pharmacy import create_app, db

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Create missing tables on boot (hosts without shell access).
# Set AUTO_CREATE_TABLES=0 when the schema is managed elsewhere.
if os.environ.get('AUTO_CREATE_TABLES', '1') == '1':
    with app.app_context():
        db.create_all()
        app.logger.info("Database tables checked/created on startup.")

if __name__ == "__main__":
    app.run()
