"""
FrontDesk - 酒店前台预订、入住、账务后端
"""
__version__ = "1.0.0"
