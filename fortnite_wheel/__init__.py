"""Fortnite V-Bucks giveaway bot with a weighted, animated prize wheel."""
