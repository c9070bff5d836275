from setuptools import setup, find_packages

setup(
    name='k0sorch',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'pydantic>=2',
        'pyyaml',
        'paramiko',
        'python-dotenv',
        'jsonschema',
        'requests',
        'tenacity',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'k0sorch=k0sorch.cli:app'
        ]
    },
    description='Parallel, phase-based k0s cluster lifecycle orchestration over SSH',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
