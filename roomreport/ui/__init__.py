import os
import sys


def main():
    """Launches the Streamlit client (`roomreport-ui`)"""
    from streamlit.web import cli as stcli

    app_path = os.path.join(os.path.dirname(__file__), "app.py")
    sys.argv = ["streamlit", "run", app_path] + sys.argv[1:]
    sys.exit(stcli.main())
