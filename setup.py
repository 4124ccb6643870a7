"""
Version is taken from the last git tag, falling back to trainsim/__init__.py.
"""
import re
import subprocess
from pathlib import Path
from setuptools import find_packages, setup

def get_version() -> str:
    """get the last version tag from git, with fallback to __init__.py

    Returns:
        str: version tag in PEP 440 format
    """
    try:
        result = subprocess.run(
            ["git", "describe", "--tags"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            timeout=5
        )
        version_tag = result.stdout.decode("utf-8").strip()

        if version_tag:
            # "v1.0.0-12-g4f69b64" becomes "1.0.0.post12"
            match = re.match(r'v?(\d+\.\d+\.\d+)(?:-(\d+)-g[a-f0-9]+)?', version_tag)
            if match:
                base_version = match.group(1)
                commits_since = match.group(2)
                if commits_since:
                    return f"{base_version}.post{commits_since}"
                return base_version
    except (subprocess.TimeoutExpired, FileNotFoundError, IndexError):
        pass

    init_file = Path(__file__).parent / "src" / "trainsim" / "__init__.py"
    if init_file.exists():
        match = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', init_file.read_text())
        if match:
            return match.group(1)

    return "1.0.0"

def validate_version(version: str) -> bool:
    """Validate Version (matches PEP 440 format)

    Args:
        version (str): version string

    Returns:
        bool: if it validates, returns True, else False
    """
    pattern = r'^\d+\.\d+\.\d+([.-]?\w+)?$'
    return bool(re.match(pattern, version))


trainsim_version = get_version()
if not validate_version(trainsim_version):
    print(f"Warning: Version '{trainsim_version}' may not match semantic versioning pattern")

setup(
    name="trainsim",
    version=trainsim_version,
    description="Train unloading dock simulation with crew hogouts",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "simpy>=4.0",
        "numpy",
        "pandas",
        "scipy",
        "colorlog",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["trainsim=trainsim.cli:main"],
    },
)
