"""
Assessment services package
"""
