"""North Star back office API"""
