"""
Hosting startup script for the LectureAI API.
Reads HOST/PORT from the environment (PORT defaults to 10000) and starts uvicorn.
"""

from lectureai.__main__ import main

if __name__ == "__main__":
    main()
