"""
Strongbox keeps GPG encrypted secrets in a git or mercurial repository.

Registered files are encrypted for every administrator listed in the keyring
directory (keyrings/live by default), and only the encrypted file is committed.
The gpg command is used to perform all encryption and decryption.

The rules used to pair filenames are:

\b
    * 'path/to/file' is encrypted to 'path/to/file.gpg'.
    * 'keyrings/live/blackbox-files.txt' lists every registered file.
    * 'keyrings/live/blackbox-admins.txt' lists every administrator.

Add an administrator whose public key is in 'keyrings/live/pubring.gpg':

\b
    $ strongbox add-admin strongbox@example.invalid

Register a new secret, encrypting it and committing the encrypted file:

\b
    $ strongbox register "secrets/api.key"

Decrypt all secrets, e.g. when deploying:

\b
    $ strongbox decrypt

Edit a secret:

\b
    $ strongbox edit-start "secrets/api.key"
    $ vi "secrets/api.key"
    $ strongbox edit-end "secrets/api.key"

Re-encrypt all secrets after changing administrators:

\b
    $ strongbox reencrypt
"""

__version__ = '1.0.0'
