from setuptools import setup, find_packages

setup(
    name='ampcs',
    packages=find_packages(include=['ampcs', 'ampcs.*']),
    python_requires='>=3.8',
    install_requires=[
        'numpy',
        'scipy',
        'matplotlib',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description='Approximate Message Passing reconstruction for compressed sensing',
    author='Your Name',
    version='0.1.0',
)
