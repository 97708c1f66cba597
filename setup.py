import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="pyTwin",
    version="0.2.0",
    author="dhrone",
    author_email="ron@ritchey.org",
    description="Keeps a python device model in step with a cloud device twin",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/dhrone/pyTwin",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "AWSIoTPythonSDK",
        "pyserial",
    ],
    extras_require={
        "test": ["pytest", "boto3"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
