"""myProfessor: lecture recordings turned into transcripts, summaries and PDFs."""

__version__ = "0.1.0"
