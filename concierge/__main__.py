from concierge.main import main

main()
