"""
envclone - clone a Supabase/PostgreSQL environment into another one,
wiping the target first and anonymizing sensitive fields on the way.
"""

__version__ = '0.1.0'
