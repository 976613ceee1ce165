# Vercel serverless function entry point for the eBay search proxy
import sys
import os

# Add the parent directory to the Python path so we can import our modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Import the Flask app; Vercel's Python runtime serves the WSGI `app`
from app import app

handler = app

# For local testing
if __name__ == "__main__":
    app.run(debug=True, port=5000)
