from setuptools import setup, find_packages

setup(
    name="confreview",
    version="1.0.0",
    description="Reviewer assignment and review lifecycle engine for conferences",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.21",
        "SQLAlchemy>=2.0",
        "Flask==3.*",
        "Werkzeug==3.*",
        "flask-cors>=3.0",
        "celery==5.*",
        "redis>=5.0",
        "kombu>=5.3.0,<6.0",
        "requests>=2.25",
        "gunicorn>=20",
    ],
    extras_require={
        "test": ["pytest>=7"],
        "full": ["flower"],
    },
    zip_safe=False,
)
