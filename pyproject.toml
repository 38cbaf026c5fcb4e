[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "noisepan"
version = "0.1.0"
description = "Fetch posts from RSS/Atom feeds, subreddits, Telegram and planning scripts, score them against a taste profile, summarize them and keep them in SQLite."
requires-python = ">=3.11"
dependencies = [
    "requests",
]
keywords = ["rss", "atom", "reddit", "telegram", "feeds", "scoring", "summarization", "sqlite"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet",
    "Topic :: Database",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["noisepan"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
