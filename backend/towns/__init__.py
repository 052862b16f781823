"""
Towns Module
============

Town records, business memberships and the milestone tracker that turns the
number of active local businesses into unlocked town features.
"""
