"""VaultAPI Client Meta information.
   VaultAPI Client retrieves and decrypts transit-encrypted secrets
   served by a VaultAPI server.
"""
__title__ = 'vaultapi_client'
__description__ = (
   'Client for VaultAPI: fetch secrets over HTTP and decrypt '
   'time-bucketed transit envelopes.'
)
__version__ = '0.2.0'
__copyright__ = 'Copyright (c) 2024 VaultAPI Client contributors'
__author__ = 'VaultAPI Client contributors'
__license__ = 'MIT'
