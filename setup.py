from setuptools import setup, find_packages

setup(
    name="launchcore",
    version="0.1.0",
    description="launchcore - движок оркестрации многопроцессных описаний запуска",
    author="launchcore Team",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "typer>=0.16.0",
        "rich>=13.7.1",
        "python-dotenv>=1.0.1",
        "PyYAML>=6.0.2",
    ],
    extras_require={
        "test": [
            "pytest>=8.3.2",
        ],
    },
    entry_points={
        "console_scripts": [
            "launchcore=launchcore.apps.cli.app:app",  # команда `launchcore`
        ],
    },
)
