"""
Gurukul e-learning backend: authentication, sessions and one-time passcodes.
"""
