[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rowanweb"
version = "0.1.0"
description = "Backend core for a personal notes and essays site: API type schemas, SQLite migrations, row entities and a connection pool"
requires-python = ">=3.10"
dependencies = [
    "python-dotenv",
]
keywords = ["blog", "notes", "essays", "sqlite", "migrations", "api-schema"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
rowanweb = "rowanweb.app:main"
rowanweb-migrate = "rowanweb.migrations:main"

[tool.hatch.build.targets.wheel]
packages = ["rowanweb"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
