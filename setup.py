from setuptools import find_packages, setup

setup(
    name="github-converge",
    version="0.1.0",
    license="Apache License 2.0",

    python_requires=">=3.11",
    description="Converges GitHub webhooks of SCM providers with their "
                "desired target configuration.",

    packages=find_packages(exclude=('tests',)),
    package_data={'github_converge': ['test/fixtures/*/*.json']},

    install_requires=[
        "sretoolbox>=1.2",
        "Click>=7.0,<9.0",
        "gql[requests]>=3.4,<4",
        "toml>=0.10.0,<0.11.0",
        "PyGithub>=2.1,<3",
        "requests>=2.31,<3",
        "prometheus-client>=0.17,<1",
        "sentry-sdk>=1.40,<3",
        "pydantic>=2.5,<3",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-mock>=3.12",
        ],
    },

    test_suite="tests",

    classifiers=[
        'Development Status :: 2 - Pre-Alpha',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
    ],
    entry_points={
        'console_scripts': [
            'github-converge = github_converge.cli:integration',
            'run-github-converge = github_converge.run_integration:main',
        ],
    },
)
