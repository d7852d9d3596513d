"""
Device and topic package.

Every operation resolves the device through the ownership guard, which
filters by device id and owner id in one lookup and reports every miss
with the same NotFound message.
"""
