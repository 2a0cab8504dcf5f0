"""
The MODEL layer contains pure data structures and business logic.
It has NO knowledge of Qt or of playback.
It deals with Points, Distances and the Index structures (distance store, M-Tree).
"""
