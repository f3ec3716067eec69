import os
import sys
import time

def main():
    role = sys.argv[1] if len(sys.argv) > 1 else "service"
    print(f"Dummy {role} starting...", flush=True)
    print(f"APP_ENV={os.environ.get('APP_ENV')}", flush=True)
    print(f"DB_HOST={os.environ.get('DB_HOST')}", flush=True)

    # count starts in the mounted volume, if there is one
    if os.path.isdir("data"):
        counter = os.path.join("data", "starts.txt")
        starts = 0
        if os.path.exists(counter):
            with open(counter) as f:
                starts = int(f.read() or 0)
        with open(counter, "w") as f:
            f.write(str(starts + 1))

    with open("ready", "w") as f:
        f.write(role)

    for _ in range(60):
        time.sleep(0.5)

if __name__ == "__main__":
    main()
