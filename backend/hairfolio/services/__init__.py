"""
Hairfolio Backend: Services Layer
==================================

Service Inventory:
    - TryOnController: try-on pipeline state machine (one per session and designer)
    - StyleDescriptionService / CompositeGenerationService: collaborator interfaces
    - GeminiStyleDescriptionService / GeminiCompositeService: Gemini implementations
    - AnalyticsAggregator: counters, popular styles, conversion rate, trial history
    - PersistenceGateway: remote store + local mirror facade
    - SqlRemoteStore / LocalFallbackStore: the two sinks
    - PortfolioService: designer records, portfolio entries, backup
    - SessionRegistry / SessionVisitTracker: client browsing sessions
    - FileService / ImageLoader: image storage and image reference resolution
"""
