"""Scoring of posts against a taste profile, and detection of trending keywords."""