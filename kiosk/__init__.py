"""Capture client for the punch clock: camera/RFID loop, stability filter and cooldown mirror."""
