"""Attr Vault Meta information.
   Attr Vault transparently encrypts record attributes with a rotating keyring.
"""
__title__ = 'attr_vault'
__description__ = (
   'Attr Vault transparently encrypts record attributes '
   'with a rotating keyring.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/attr-vault'
