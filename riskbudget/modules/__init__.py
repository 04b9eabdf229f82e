"""
Console modules, discovered by the framework at startup
"""
