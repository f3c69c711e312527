from setuptools import setup

version = '0.1'

with open("README.md", "r", encoding="utf-8") as f:
    long_descr = f.read()

setup(
    name='pyxap',
    packages=['pyxap'],
    version=version,
    license='Apache 2.0',
    description='Control XAP audio matrix mixers over serial',
    long_description=long_descr,
    long_description_content_type='text/markdown',
    keywords=['XAP', 'XAP800', 'Audio Mixer', 'Serial'],
    python_requires='>=3.10',
    install_requires=[
        "aiohttp>=3.9",
        "pyserial>=3.5",
        "pyserial-asyncio>=0.6",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Topic :: Multimedia :: Sound/Audio :: Mixers',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3.10'
    ],
)
