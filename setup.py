from setuptools import setup, find_namespace_packages

setup(
    name="dbox",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["dbox", "dbox.*"]),
    package_dir={"": "src"},
    package_data={"dbox": ["DATA/*.yaml"]},
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "click>=8.0",
        "tenacity>=8.0",
        "python-dotenv>=1.0",
        "jinja2>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dbox=dbox.CLI.main:main",
            "dbox-init=dbox.CLI.main:init_main",
            "dbox-export=dbox.CLI.main:export_main",
        ],
    },
)
