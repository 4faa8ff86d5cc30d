"""Constant values for pkgstore."""

PKG_FILE_NAME = "package.json"

# errno-style codes attached to some errors
NO_SUCH_FILE = "ENOENT"
FILE_EXIST = "EEXISTS"

SECRET_KIND = "Secret"
SECRET_ID = "secret"

PROJECT_ID_ENV = "GOOGLE_CLOUD_VERDACCIO_PROJECT_ID"
KEY_FILENAME_ENV = "GOOGLE_CLOUD_VERDACCIO_KEY"
