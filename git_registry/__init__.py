"""
Swift package registry backed by the tags of git repositories.
"""
