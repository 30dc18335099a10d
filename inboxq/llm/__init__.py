"""Gemini access shared by the annotator and follow-on actions"""
