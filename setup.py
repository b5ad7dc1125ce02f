from setuptools import find_packages, setup

setup(
    name='eculink',
    version='1.0.0',
    description='Auto-reconnecting WebSocket telemetry monitor for ESP32 engine control units',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['eculink', 'eculink.*']),
    python_requires='>=3.11',
    install_requires=[
        'websockets>=13.0',
        'msgspec',
        'transitions',
        'tenacity',
        'marshmallow>=3.13',
        'prometheus-client',
        'uvloop>=0.18',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'eculink=eculink.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
