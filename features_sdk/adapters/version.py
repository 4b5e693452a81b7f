SDK_VERSION_HEADER_NAME = "features-sdk-version"
SDK_VERSION = "python-sdk/0.1.0"
