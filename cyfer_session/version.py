"""Cyfer Session Meta information.
   Cyfer Session drives the lock/unlock lifecycle of a password vault
   and mediates every read/write through a secrets engine.
"""
__title__ = 'cyfer_session'
__description__ = (
   'Cyfer Session drives the lifecycle of an encrypted password vault '
   'and mediates every credential operation through a secrets engine.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 Cyfer Developers'
__author__ = 'Cyfer Developers'
__author_email__ = 'dev@cyfer.dev'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/cyfer-rs/cyfer-session'
