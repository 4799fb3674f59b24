"""
app/domain package marker.
"""
