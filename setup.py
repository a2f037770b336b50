from setuptools import find_packages, setup

setup(
    name='polyphony',
    version='0.1.0',
    description='Search, stream and queue music across streaming services',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    author='Polyphony contributors',
    author_email='',
    license='MIT',
    platforms='ALL',
    packages=find_packages(include=['polyphony', 'polyphony.*']),
    python_requires='>=3.10',
    install_requires=[
        'pydantic>=2.0.0',
        'pydantic-settings>=2.0.0',
        'PyYAML',
        'requests',
        'spotipy',
        'typer',
        'rich',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'polyphony=polyphony.cli:main',
        ],
    },
)
