[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shopfront"
version = "0.1.0"
description = "Storefront request handlers and data models over MongoDB: products, reviews, users, merchants and payment payloads"
requires-python = ">=3.10"
dependencies = [
    "pymongo",
]
keywords = ["ecommerce", "storefront", "mongodb", "products", "reviews", "merchants"]
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
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["shopfront"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
