"""Quiz core package.

This package holds the quiz subsystem of the learning platform: importing
quiz documents, running attempts and scoring them. Modules are small and
layered (models, repositories, services); the FastAPI adapter in `main`
is a thin shell over the services.
"""
