"""FixBudi appliance repair marketplace backend"""
