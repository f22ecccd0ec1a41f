#!/usr/bin/env python
from setuptools import setup

setup(
    name='gpg-kms',
    version='0.1.0',
    description='Using AWS KMS keys for PGP signatures',
    license='MIT',
    packages=['gpgkms', 'gpgkms.gpg'],
    install_requires=[
        'boto3>=1.16',
        'botocore>=1.19',
        'ConfigArgParse>=0.12.1',
        'ecdsa>=0.14',
    ],
    extras_require={
        'test': ['mock', 'pytest'],
    },
    platforms=['POSIX'],
    classifiers=[
        'Environment :: Console',
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX',
        'Programming Language :: Python :: 3.7',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Topic :: Security :: Cryptography',
        'Topic :: Communications',
    ],
    entry_points={'console_scripts': ['gpg-kms = gpgkms.__main__:main']},
)
