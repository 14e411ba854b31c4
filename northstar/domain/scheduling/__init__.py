"""
Scheduling Domain

Business hours, appointment availability, meetings and the iCloud calendar
connection whose busy times block availability.
"""
