"""Payload codecs for the Hue Dat integration."""
