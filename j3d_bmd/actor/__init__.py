"""J3D skeleton and skinning: joints (JNT1), envelopes (EVP1), draw matrices (DRW1).

Resolves every vertex's bone weights through the packet matrix tables,
and rebuilds joint parentage from the INF1 scene graph.
"""
