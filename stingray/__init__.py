"""Stingray CMS: metadata-driven content management on MySQL/MariaDB."""
