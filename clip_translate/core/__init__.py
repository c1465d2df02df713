"""
Core page translation engine
"""
