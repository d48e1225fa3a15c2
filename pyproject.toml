[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "routedns"
version = "0.1.0"
description = "DNS query routing building blocks: blocklists, allowlists, a response cache and configuration handling"
requires-python = ">=3.11"
dependencies = [
    "dnspython",
]
keywords = ["dns", "resolver", "blocklist", "allowlist", "cache", "hosts"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["routedns"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
