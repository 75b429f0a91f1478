"""
REST API server for the prescription portal.
Run: python api_server.py
"""

from rxportal.api.app import main

if __name__ == "__main__":
    main()
