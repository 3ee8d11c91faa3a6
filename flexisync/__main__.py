from flexisync.main import main

raise SystemExit(main())
