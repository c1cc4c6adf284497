import os
import uvicorn
from dotenv import load_dotenv

def main():
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    dotenv_path = os.path.join(base_dir, '.env')
    print(f"Loading env from {dotenv_path}...")
    load_dotenv(dotenv_path)

    db_url = os.environ.get("DATABASE_URL")
    print(f"DATABASE_URL: {db_url.split('@')[-1][:40]}..." if db_url else "DATABASE_URL: not set, using local SQLite")

    if not os.environ.get("OPENAI_API_KEY"):
        print("OPENAI_API_KEY not set: analysis endpoints will answer with rule-based fallbacks")

    port = int(os.environ.get("PORT", "8000"))
    print(f"Starting SocialPulse at http://0.0.0.0:{port}")
    uvicorn.run("socialpulse.main:app", host="0.0.0.0", port=port, reload=False)

if __name__ == "__main__":
    main()
