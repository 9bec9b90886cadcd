from setuptools import setup, find_packages

setup(
    name='isoterm',
    version='0.1.0',
    description='Bootstrap an isolated shell toolchain without touching the system install',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.10',
    install_requires=[
        'aiohttp',
        'aiofiles',
        'rich',
        'platformdirs',
        'PyYAML',
        'packaging',
    ],
    extras_require={
        'test': [
            'pytest<9.1',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'isoterm=isoterm.cli:main',
        ],
    },
)
