"""tests.integration package

Integration-level suites that drive the csv-relay application through its
HTTP surface with FastAPI's ``TestClient``. Keeping them apart from the *unit*
tests lets developers run the fast subset during TDD cycles while CI still
runs the full stack via `pytest -m integration`.
"""
