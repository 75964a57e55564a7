"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py seed-catalog
    flask --app run.py create-admin
    flask --app run.py --debug run

"""

from solarportal import create_app

# WSGI application object for Flask to run.
# When you run `flask run`, Flask looks for this `app` variable to start the application.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only); use `flask run` or a WSGI server otherwise.
    app.run(debug=True)
