# -*- coding: utf-8 -*-

import setuptools
import os

# for some reason os gets munged after this point on Windows, so compute it here.
readme_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "README.md")

setuptools.setup(
    name="nionlayout",
    version="0.1.0",
    author="Nion Software",
    author_email="swift@nion.com",
    description="Declarative layout interpreter: build live component trees from layout descriptions.",
    long_description=open(readme_path).read(),
    long_description_content_type="text/markdown",
    url="https://github.com/nion-software/nionlayout",
    packages=["nion.layout", "nion.layout.test"],
    python_requires=">=3.9",
    install_requires=['nionutils>=0.3.19', 'httpx>=0.28'],
    license='Apache 2.0',
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3.9",
    ],
    test_suite="nion.layout.test",
)
