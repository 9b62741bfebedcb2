"""Infrastructure layer — file loading, container engine, templates.

This layer depends on stdlib and third-party libs (ruamel.yaml, httpx,
Jinja2, python-dotenv) and may use domain models. It must never import
from services, commands, or output.
"""
